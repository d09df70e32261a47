"""Generate pipeline: temp modules, workspace synthesis, filesystem transition, npm driver."""
