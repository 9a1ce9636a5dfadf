"""情侣共养宠物：照料、成长与双端同步引擎。"""
__version__ = "0.1.0"
