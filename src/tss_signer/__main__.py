"""Entry point for running as module: python -m tss_signer"""

import sys

from tss_signer.cli import main

if __name__ == "__main__":
    sys.exit(main())
