"""
Studio Publisher - ship generated web projects to source control and hosting.

Publishes a batch of in-memory files to a GitHub branch as one atomic commit
and hands the same files to a deployment provider.
"""

__version__ = "0.4.2"
