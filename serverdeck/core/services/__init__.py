"""Server software services — detection, control, sections and the aggregator."""
