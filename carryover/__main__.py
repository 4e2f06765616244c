from carryover.cli import main

raise SystemExit(main())
