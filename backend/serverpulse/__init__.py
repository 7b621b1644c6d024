"""ServerPulse - 单主机 SSH 指标采集与时序聚合。"""
__version__ = "0.1.0"
