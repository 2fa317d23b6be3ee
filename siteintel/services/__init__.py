"""Site Intel services: fetching, search, scoring, discovery, audits and reports."""
