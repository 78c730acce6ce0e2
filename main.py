import sys

from wallet_backup.cli import main

if __name__ == "__main__":
    sys.exit(main())
