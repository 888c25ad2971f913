"""
Invoice Financial Engine

The auditable core of the invoicing system:
- Integer-cent invoice totals (IVA, cassa previdenziale, ritenuta, bollo)
- Partita IVA / Codice Fiscale validation
- Gap-free per-owner, per-year invoice numbering under concurrent writers
- Invoice lifecycle state machine
"""

__version__ = "0.1.0"
