"""
docrepair - Queue-backed correction pipeline for schema-invalid documents.

Documents that fail validation are wrapped as correction jobs, delivered
at-least-once through a queue, corrected by a generative model with an
escalating token budget, re-validated, and upserted by document id.
"""

__version__ = "0.1.0"
