"""Remote-control client for a networked power/relay meter."""
