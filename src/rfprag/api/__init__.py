"""HTTP interface for RfpRAG."""
