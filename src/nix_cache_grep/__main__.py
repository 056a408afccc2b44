from nix_cache_grep.cli import main

raise SystemExit(main())
