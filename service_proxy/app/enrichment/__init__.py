"""
Report enrichment.

Report bodies are sent once per distinct text to the extraction backend;
results are cached under a hash of the body.
"""
