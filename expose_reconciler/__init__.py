"""
Exposé Extraction Reconciler — field-level trust decisions for LLM-extracted property data.

Architecture: Verification findings → Corrections → Calculation audit → Confidence score
Philosophy:  Trust the AI to extract. Trust only code to reconcile.
"""

__version__ = "1.0.0"
