"""Allow running as: python -m lead_intel"""

from lead_intel.cli import cli

cli()
