from lowbot.rendering.formatter import OutputConfig, OutputFormatter

__all__ = ["OutputConfig", "OutputFormatter"]
