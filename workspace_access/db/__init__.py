from workspace_access.db import filters as _filters  # noqa: F401  (register soft-delete filter)
