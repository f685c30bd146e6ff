"""Qt front end (optional ``gui`` extra: PySide6 and pyqtgraph).

Nothing outside this package imports Qt, so the decoder runs headless
without the extra installed.
"""
