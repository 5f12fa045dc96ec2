"""Allow `python -m sqlbench`."""

from sqlbench.cli import main

raise SystemExit(main())
