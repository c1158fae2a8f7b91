"""Service layer.

- Routers and the scheduler call these modules; they never touch sessions.
- Services own session/transaction boundaries.
- CRUD helpers used here do NOT commit; they run inside session.begin().
"""
