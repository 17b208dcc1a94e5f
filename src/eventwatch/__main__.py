import sys

from eventwatch.app import main

sys.exit(main())
