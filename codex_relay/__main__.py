from codex_relay.cli import main

raise SystemExit(main())
