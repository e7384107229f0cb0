"""kubesnap: schema-agnostic snapshots of everything a cluster's API server lists."""

__version__ = "0.1.0"
