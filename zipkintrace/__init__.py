"""Zipkin tracing: tracer, samplers, B3 propagation, baggage and span reporters."""

__version__ = "0.1.0"