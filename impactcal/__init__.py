"""
ImpactCal — Impact Calibration & Weight-Suggestion Service.

Architecture:
    impactcal/
    ├── api/             # FastAPI routers (HTTP layer)
    ├── auth/            # JWT authentication, RBAC
    ├── db/              # SQLAlchemy models, engine, compatibility types
    ├── middleware/      # Tenant isolation, request context, error handling
    └── calibration/     # Calibration engine (buckets, cells, bias, weights)

Module Boundaries:
    - Validation samples are produced by an upstream validation process;
      the engine only reads them
    - The engine drafts weight suggestions, it never activates weights
    - Activating a suggested vector is a separate governance step (review)
    - Every run, cell and suggestion is write-once and stays inspectable

Data Flow:
    Validations → Bucket Classifier → Cell Aggregator → Run Summarizer
    → Bias Analyzer → Weight Corrector → Draft Suggestion → Review

Version: 1.0.0
"""

__version__ = "1.0.0"
