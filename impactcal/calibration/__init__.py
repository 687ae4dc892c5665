"""
ImpactCal Calibration Engine — compare predicted impact with observed behavior.

Components:
- buckets: closed-above bucket classification of 0-100 scores
- cells: per (predicted, actual) bucket aggregation, outlier flags
- summary: run-level gap metrics and overall status
- bias: declarative over/under-estimation patterns
- weights: nudge → normalize → clamp → normalize weight correction
- store: SQLAlchemy-backed sample store and run persistence
- orchestrator: one calibration run, stage by stage
- review: suggestion acceptance / rejection and weight versioning
- validations: intake of validation samples
"""
