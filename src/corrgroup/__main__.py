from corrgroup.cli import main

raise SystemExit(main())
