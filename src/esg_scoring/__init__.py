"""
ESG assessment scoring and aggregation engine.

The presentation layer (charts, tables, exports) consumes the plain data
structures produced by esg_scoring.core; see core/view_model.py for the
single entry point used by dashboards.
"""

from esg_scoring.config import APP_NAME, APP_VERSION

__version__ = APP_VERSION

__all__ = ["APP_NAME", "APP_VERSION", "__version__"]
