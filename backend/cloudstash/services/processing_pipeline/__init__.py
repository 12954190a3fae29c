"""
Processing Pipeline Module

Handlers for the three background job kinds, the media transforms they use,
and the factory that wires them into a dispatch registry
(see processing_pipeline.create_processing_pipeline).
"""
