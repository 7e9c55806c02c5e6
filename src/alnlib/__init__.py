"""
Streaming parsers that turn pairwise-alignment dumps into canonical per-match lines, keeping only the best matches
per query.
"""


# Exceptions and Warnings ----------------------------------------------------------------------------------------------
class AlnlibWarning(Warning): pass
class ParserWarning(AlnlibWarning):
    """Warning category for recoverable, per-record parsing problems."""
    pass
