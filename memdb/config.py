"""
Copyright (c) 2026, Chen Jie, Joungtao, Xuzheng Jiang
All rights reserved.
This source code is licensed under the BSD-2-Clause license found in the
LICENSE file in the root directory of this source tree.
"""

# config.py
from typing import Literal

from tap import Tap

class Config(Tap):
    """memdb 的配置模型"""

    # --- Input & Output ---
    capture: str | None = None  # 采集地址 host[:port]，默认端口 8989
    load: str | None = None  # 从文件加载堆记录
    save: str | None = None  # 将堆记录保存到文件
    compress: bool = False  # 保存时是否使用 zstd 压缩

    # --- Analysis ---
    histogram: bool = False  # 输出分配大小直方图
    no_buckets: bool = False  # 直方图不使用 2 的幂分桶
    diff: str | None = None  # 计算区间差异，格式 from..to
    truncate: str | None = None  # 只保留指定区间的堆操作
    print_operation: int | None = None  # 输出指定序号的堆操作
    backtrace: bool = False  # 输出堆操作时显示调用栈

    # --- Plots ---
    plot: bool = False  # 绘制堆大小随时间变化图
    plot_range: str | None = None  # 绘图区间，默认为整个记录
    columns: int = 100  # 绘图列数
    rows: int = 40  # 绘图行数
    plot_layout: bool = False  # 绘制 --diff 的地址布局图
    layout_columns: int = 15  # 布局图列数
    layout_rows: int = 40  # 布局图行数
    plot_image: str | None = None  # 将堆使用图保存为图片

    # --- Capture ---
    poll_interval: float = 0.1  # 套接字轮询间隔 (秒)
    capture_timeout: float | None = None  # 采集超时 (秒)，默认不限制
    length_prefixed: bool = False  # 每条消息前带 4 字节长度前缀 (默认与服务端一致，不带前缀)

    # --- Advanced Settings ---
    interactive: bool = False  # 处理完命令行参数后进入交互模式
    no_color: bool = False  # 禁用 ANSI 颜色
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"  # 日志级别
    log_interval: int = 10000  # 采集时每接收多少个操作输出一次进度


# 全局配置实例
settings: Config = None


def initialize_config(args: list[str] | None = None) -> Config:
    """解析命令行参数并初始化全局的 `settings` 对象"""
    global settings
    settings = Config(underscores_to_dashes=True).parse_args(args)
    return settings
