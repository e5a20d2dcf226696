import sys

from bash2go.cli import main

sys.exit(main())
