from __future__ import annotations

from apps.target_engine.main import main

if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
