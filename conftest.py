"""Root conftest: keeps the package importable when running pytest from the checkout."""
