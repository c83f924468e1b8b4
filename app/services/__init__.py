"""
Domain services.

Each module owns one tracked entity and routes its writes through
app.services.mutations.MutationPipeline.
"""
