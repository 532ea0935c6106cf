"""
repositories/ - Data Access Layer
==================================
A TableAccessor encapsulates the SQL for one table: it builds statements from
structured input, runs them through the shared pool and notifies observers.
"""
