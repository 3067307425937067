"""Market scanning -- cross-exchange funding spread opportunities."""

from funding_arb.market_data.opportunity_scanner import OpportunityScanner, classify

__all__ = ["OpportunityScanner", "classify"]
