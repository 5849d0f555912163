"""CodeMap CLI: dependency graph, coherence scoring and change propagation for JS/TS projects."""

__version__ = "0.1.0"
