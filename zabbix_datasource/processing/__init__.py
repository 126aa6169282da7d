"""Series processing: the metric function registry, the pipeline
applying it and the final downsampling step."""
