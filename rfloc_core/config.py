"""
RF定位回放工具配置文件
"""

# 存储配置
STORAGE_CONFIG = {
    "db_path": "emitters.db",         # 发射源数据库路径
    "max_age": 30,                    # 未使用多少个周期后从工作集移除
    "max_working_set": 200,           # 工作集上限
}

# 处理配置
PROCESSING_CONFIG = {
    "collection_interval_s": 4.0,     # 收集周期（秒）
    "result_process_noise_m": 6.0,    # 结果平滑卡尔曼过程噪声
    "reference_process_noise_m": 3.0, # 参考位置（GPS）卡尔曼过程噪声
    "minimum_accuracy_m": 15.0,       # 加权平均最小精度（米）
    "expected_speed_m_s": 120 / 3.6,  # 上次平均位置精度按此速度随时间放大（120公里/小时）
    "max_queue_size": 0,              # 队列上限，0为不限
}

# 信号模型配置
SIGNAL_CONFIG = {
    "minimum_asu": 1,
    "maximum_asu": 31,
}

# 输出配置
OUTPUT_CONFIG = {
    "enable_console_print": True,     # 是否打印定位结果
    "print_summary": True,            # 结束时打印统计
}

# 日志配置
LOGGING_CONFIG = {
    "level": "INFO",
    "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
}
