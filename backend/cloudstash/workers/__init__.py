"""
Background workers for the file-processing pipeline.

Import concrete workers from their modules; this package stays free of
imports so the queue backends can use the mixins without a cycle.
"""
