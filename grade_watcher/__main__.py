import sys

from grade_watcher.main import main


sys.exit(main())
