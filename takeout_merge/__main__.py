from takeout_merge.cli import main

raise SystemExit(main())
