"""ctxwin - keeps long, tool-heavy conversations inside a model's context window"""

__version__ = "0.1.0"
