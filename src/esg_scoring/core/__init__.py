"""
Core scoring and analytics layer.

This package contains:
- scores: category / overall percentages from one raw assessment
- year_resolver: one canonical assessment per firm and year
- status: maturity tier for an overall score
- aggregator: per-firm, per-dimension and population rollups
- filters / comparison: dashboard filter set and the firm comparison table
- audit: calculation breakdown and year-over-year trend facts
- view_model: computes everything above from one resolved dataset
- data_loader: REST client for the admin backend (the only module doing I/O)
"""
