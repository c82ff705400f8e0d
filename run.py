import argparse
import logging
import sys

from acc_recompute.config import load_settings
from acc_recompute.database import create_db_engine
from acc_recompute.exceptions import ConfigError
from acc_recompute.logger_config import setup_logging
from acc_recompute.services import RecomputeScheduler, TableRecomputeService

logger = logging.getLogger("acc_recompute")


def main(argv=None) -> int:
    # 解析命令行参数
    parser = argparse.ArgumentParser(description="启动账务数据重算服务（币种换算 + 办公室信息补齐）")
    parser.add_argument("--config", type=str, default="config.yaml", help="YAML 配置文件路径")
    parser.add_argument("--once", action="store_true", help="只执行一轮扫描后退出")
    args = parser.parse_args(argv)

    try:
        settings = load_settings(args.config)
    except ConfigError as e:
        print(f"load config error: {e}", file=sys.stderr)
        return 1

    setup_logging(settings.log_file, settings.IS_DEBUG)

    try:
        engine = create_db_engine(settings)
    except Exception as e:
        logger.error(f"db connect error: {e}")
        return 1

    table_service = TableRecomputeService(engine, settings.RECOMPUTE_BATCH_SIZE, debug=settings.IS_DEBUG)
    scheduler = RecomputeScheduler(
        table_service,
        idle_seconds=settings.IDLE_SECONDS,
        table_pause_seconds=settings.TABLE_PAUSE_SECONDS,
    )

    try:
        if args.once:
            scheduler.run_sweep()
        else:
            scheduler.run_forever()
    except KeyboardInterrupt:
        logger.info("recompute stopped by user")
    finally:
        engine.dispose()
    return 0


if __name__ == "__main__":
    sys.exit(main())
