"""应用入口（命令行）。

说明：
- 入口层只负责参数解析与 I/O（写图片/视频/JSONL、状态输出），算法与状态都在 `backdrop.pipeline`。
"""
