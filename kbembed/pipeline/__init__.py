from kbembed.pipeline.tracer import PipelineTracer, log_sink

__all__ = ["PipelineTracer", "log_sink"]
