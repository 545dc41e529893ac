"""Document ingestion and three-way matching.

Maps analysed invoices, purchase orders and goods-received notes into
normalized records, stores them with deduplication, and reconciles
purchase orders against invoices and GRNs within configurable tolerances.
"""
