# File: app/engine/__init__.py | Version: 1.0 | Path: /app/engine/__init__.py
# Dynamic data engine: registry, filter/order compilers, row ordering,
# aggregates, SQL sandbox and cross-table search.
