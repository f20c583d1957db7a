"""初始化数据库"""
import argparse
import sys
import os

# 添加项目根目录到路径
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from database import DatabaseManager
from database.models import Barbershop
from loguru import logger


def init_database(database_url=None, barbershop_name="Barbearia", phone=None):
    """初始化数据库和种子数据

    Args:
        database_url: 数据库连接URL（可选，默认使用 settings）。
        barbershop_name: 种子门店名称。
        phone: 种子门店电话（可选）。

    Returns:
        种子门店ID。
    """
    logger.info("Initializing database...")

    db = DatabaseManager(database_url)

    # 创建所有表
    logger.info("Creating tables...")
    db.create_tables()

    # 插入种子数据
    logger.info("Inserting seed data...")
    shops = db.barbershops.get_all(Barbershop, filters={"name": barbershop_name})
    if shops:
        shop = shops[0]
        logger.info(f"Barbershop already exists: {shop.name} (id={shop.id})")
    else:
        shop = db.barbershops.create(barbershop_name, phone=phone)
        logger.info(f"Created barbershop: {shop.name} (id={shop.id})")

    # 插入服务（从 business_config 获取）
    created = db.seed_services(shop.id)
    logger.info(f"Created {created} services")

    logger.info("Database initialization completed!")
    db.close()
    return shop.id


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="初始化数据库与种子数据")
    parser.add_argument("--db", default=None, help="数据库连接 URL")
    parser.add_argument("--name", default="Barbearia", help="种子门店名称")
    parser.add_argument("--phone", default=None, help="种子门店电话")
    args = parser.parse_args()
    init_database(args.db, args.name, args.phone)
