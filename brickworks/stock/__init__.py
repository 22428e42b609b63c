"""brickworks.stock

Stock bookkeeping behind the `StockSink` / `StockReport` protocols.
"""

from brickworks.stock.sink import InMemoryStockLedger, StockReport, StockSink, normalize_reference

__all__ = ["InMemoryStockLedger", "StockReport", "StockSink", "normalize_reference"]
