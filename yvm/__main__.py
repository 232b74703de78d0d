import sys

from yvm.cli import main

sys.exit(main())
