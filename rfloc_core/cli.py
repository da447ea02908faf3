"""
RF定位回放程序
读取JSON行格式的扫描/参考位置日志，按顺序送入处理队列，打印每个周期的定位结果

日志格式（每行一条记录）:
    {"type": "reference", "time": 12.0, "lat": 22.29, "lon": 114.17, "accuracy": 5.0}
    {"type": "scan", "time": 12.5, "observations": [
        {"id": "00:11:22:33:44:55", "kind": "WLAN", "asu": 20, "note": "HomeNet"}]}
"""

import sys
import json
import signal
import logging
import argparse
from typing import Optional

from rfloc_core import config
from rfloc_core.proto import EmitterKind, RfIdentification, Observation, ReferenceFix, PositionFix
from rfloc_core.metrics import get_metrics
from rfloc_core.localization import ReferenceTracker, SignalModel
from rfloc_core.storage import SQLiteEmitterStore, EmitterCache, StorageError
from rfloc_core.domain import CycleProcessor, ProcessorConfig, ProcessingWorker

logger = logging.getLogger(__name__)


def parse_reference(record: dict) -> ReferenceFix:
    """解析参考位置记录"""
    return ReferenceFix(
        lat=float(record["lat"]),
        lon=float(record["lon"]),
        accuracy_m=float(record["accuracy"]),
        time_s=float(record["time"]),
        altitude_m=record.get("altitude"),
    )


def parse_observation(record: dict) -> Observation:
    """解析单条观测"""
    ident = RfIdentification(str(record["id"]), EmitterKind.from_name(record["kind"]))
    return Observation(ident, int(record.get("asu", 1)), record.get("note", ""))


class ReplaySession:
    """日志回放会话"""

    def __init__(self, db_path: str):
        """初始化存储、缓存、处理器和工作线程"""
        self.store = SQLiteEmitterStore(db_path)
        self.cache = EmitterCache(
            self.store,
            max_age=config.STORAGE_CONFIG["max_age"],
            max_working_set=config.STORAGE_CONFIG["max_working_set"],
            signal_model=SignalModel(**config.SIGNAL_CONFIG),
        )
        self.processor = CycleProcessor(
            self.cache,
            ProcessorConfig(
                collection_interval_s=config.PROCESSING_CONFIG["collection_interval_s"],
                result_process_noise_m=config.PROCESSING_CONFIG["result_process_noise_m"],
                minimum_accuracy_m=config.PROCESSING_CONFIG["minimum_accuracy_m"],
                expected_speed_m_s=config.PROCESSING_CONFIG["expected_speed_m_s"],
            ),
            position_sink=self._on_fix,
        )
        self.worker = ProcessingWorker(
            self.processor,
            ReferenceTracker(config.PROCESSING_CONFIG["reference_process_noise_m"]),
            max_queue_size=config.PROCESSING_CONFIG["max_queue_size"],
        )
        self.fix_count = 0
        self.line_count = 0
        self.bad_lines = 0
        self.last_fix: Optional[PositionFix] = None

    def _on_fix(self, fix: PositionFix):
        """定位结果回调"""
        self.fix_count += 1
        self.last_fix = fix
        if config.OUTPUT_CONFIG["enable_console_print"]:
            print(json.dumps(fix.to_dict()))

    def handle_line(self, line: str):
        """处理一行日志"""
        line = line.strip()
        if not line:
            return
        self.line_count += 1

        try:
            record = json.loads(line)
        except json.JSONDecodeError as e:
            self.bad_lines += 1
            logger.warning(f"JSON解析失败 (第{self.line_count}行): {e}")
            return

        try:
            kind = record.get("type")
            if kind == "reference":
                self.worker.submit_reference(parse_reference(record))
            elif kind == "scan":
                observations = [parse_observation(o) for o in record.get("observations", [])]
                self.worker.submit_observations(observations, float(record["time"]))
            else:
                self.bad_lines += 1
                logger.warning(f"未知记录类型 (第{self.line_count}行): {kind!r}")
        except (KeyError, TypeError, ValueError) as e:
            self.bad_lines += 1
            logger.warning(f"记录格式错误 (第{self.line_count}行): {e}")

    def run(self, stream):
        """回放整个日志"""
        self.worker.start()
        try:
            for line in stream:
                self.handle_line(line)
            self.worker.join()
            self.processor.end_cycle()
        finally:
            self.worker.stop(timeout=1.0)
            self.store.close()

    def print_summary(self):
        """打印统计"""
        print("\n" + "=" * 60)
        print("               回放完成")
        print("=" * 60)
        print(f"日志行数: {self.line_count}")
        print(f"无效行数: {self.bad_lines}")
        print(f"定位结果数: {self.fix_count}")
        if self.last_fix is not None:
            print(f"最后位置: ({self.last_fix.lat:.6f}, {self.last_fix.lon:.6f}) "
                  f"+/-{self.last_fix.accuracy_m:.0f}m")
        print("=" * 60)
        get_metrics().print_summary()


def main(argv=None):
    """主函数"""
    parser = argparse.ArgumentParser(description='RF发射源定位日志回放')
    parser.add_argument('--db', type=str, default=None,
                        help='发射源数据库路径')
    parser.add_argument('--log', '-l', type=str, required=True,
                        help='JSON行格式日志文件，"-" 表示标准输入')
    parser.add_argument('--debug', '-d', action='store_true',
                        help='启用调试日志')

    args = parser.parse_args(argv)

    # 配置日志
    logging.basicConfig(
        level=logging.DEBUG if args.debug else getattr(logging, config.LOGGING_CONFIG["level"]),
        format=config.LOGGING_CONFIG["format"]
    )

    # 更新配置
    if args.db:
        config.STORAGE_CONFIG["db_path"] = args.db

    # 收到信号时停止
    signal.signal(signal.SIGTERM, lambda signum, frame: sys.exit(1))

    try:
        session = ReplaySession(config.STORAGE_CONFIG["db_path"])
        if args.log == "-":
            session.run(sys.stdin)
        else:
            with open(args.log, "r", encoding="utf-8") as f:
                session.run(f)
    except StorageError as e:
        logger.error(f"存储错误: {e}")
        return 1

    if config.OUTPUT_CONFIG["print_summary"]:
        session.print_summary()
    return 0

