# Repositories package.
#
# Each module pairs session-level async helpers with a small repository
# class for one aggregate:
#
#   articles    — creation with tags, filtered listing, follow feed
#   users       — registration, lookups, patch updates, authentication
#   tags        — resolve-or-create and read-only tag lookups
#   hydration   — attaching tags/author/favoriters and followers
#   predicates  — filter → parameterized WHERE clauses, pagination
#
# Session-level helpers take an AsyncSession as their first argument so
# they compose inside one transaction; the repository classes open that
# transaction through the TransactionCoordinator.
