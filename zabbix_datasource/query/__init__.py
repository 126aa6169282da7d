"""Query resolution: name filters, the group/host/application/item
resolver and the normalisation of raw history into series."""
