"""Field reports application.

Forms, review tables and result dashboards for the reports supervisors file
from mosque sites: meal evaluations, maintenance and cleaning reports and
attendance counts.  Records are read from and written to an external sheet
store; the filtering, aggregation and selection logic lives in
``fieldreports.services``.
"""
