"""通用 CRUD 基类。

所有仓库继承 BaseCRUD 获得通用的增删改查能力。每个方法都支持传入外部
会话（session 参数），以便多个仓库操作在同一个数据库事务内完成；
未传入时自动创建并提交独立会话。
"""
from contextlib import contextmanager
from datetime import date, datetime
from typing import Any, Callable, Dict, Iterator, List, Optional, Type, TypeVar

from sqlalchemy.orm import Session

from .connection import DatabaseConnection

T = TypeVar("T")


class BaseCRUD:
    """通用数据访问基类。

    Attributes:
        conn: 数据库连接管理器。
    """

    def __init__(self, conn: DatabaseConnection) -> None:
        self.conn = conn

    def _get_session(self) -> Session:
        """创建新的数据库会话。"""
        return self.conn.get_session()

    @contextmanager
    def _session_scope(self, session: Optional[Session] = None
                       ) -> Iterator[Session]:
        """会话作用域。

        传入外部会话时直接复用（由调用方负责提交）；否则创建独立会话，
        正常结束时提交，异常时回滚。
        """
        if session is not None:
            yield session
            return

        with self._get_session() as sess:
            try:
                yield sess
                sess.commit()
            except Exception:
                sess.rollback()
                raise

    def _run(self, func: Callable[[Session], T],
             session: Optional[Session] = None) -> T:
        """在（外部或独立）会话中执行函数。"""
        with self._session_scope(session) as sess:
            return func(sess)

    def add(self, obj: T, session: Optional[Session] = None) -> T:
        """新增一条记录并返回（已分配主键）。"""
        def _do(sess):
            sess.add(obj)
            sess.flush()
            sess.refresh(obj)
            return obj

        return self._run(_do, session)

    def get_by_id(self, model: Type[T], record_id: int,
                  session: Optional[Session] = None) -> Optional[T]:
        """按主键查询。"""
        return self._run(
            lambda sess: sess.query(model).filter(
                model.id == record_id
            ).first(),
            session
        )

    def get_all(self, model: Type[T],
                filters: Optional[Dict[str, Any]] = None,
                session: Optional[Session] = None) -> List[T]:
        """按等值条件查询全部记录。

        Args:
            model: ORM 模型类。
            filters: 字段名 -> 值 的等值过滤条件（可选）。

        Returns:
            记录列表。
        """
        def _query(sess):
            query = sess.query(model)
            for field, value in (filters or {}).items():
                query = query.filter(getattr(model, field) == value)
            return query.all()

        return self._run(_query, session)

    def update_by_id(self, model: Type[T], record_id: int,
                     session: Optional[Session] = None,
                     **values: Any) -> Optional[T]:
        """按主键更新字段。

        Returns:
            更新后的对象，记录不存在返回 None。
        """
        def _do(sess):
            obj = sess.query(model).filter(model.id == record_id).first()
            if obj is None:
                return None
            for field, value in values.items():
                setattr(obj, field, value)
            sess.flush()
            sess.refresh(obj)
            return obj

        return self._run(_do, session)

    def delete_by_id(self, model: Type[T], record_id: int,
                     session: Optional[Session] = None) -> bool:
        """按主键删除。

        Returns:
            是否删除了记录。
        """
        def _do(sess):
            obj = sess.query(model).filter(model.id == record_id).first()
            if obj is None:
                return False
            sess.delete(obj)
            sess.flush()
            return True

        return self._run(_do, session)

    @staticmethod
    def _parse_date(date_value: Any, field_name: str = "Date") -> date:
        """解析日期值（YYYY-MM-DD 字符串或 date 对象）。

        Raises:
            ValueError: 格式无效或缺失。
        """
        if isinstance(date_value, datetime):
            return date_value.date()
        if isinstance(date_value, date):
            return date_value
        if isinstance(date_value, str):
            try:
                return datetime.strptime(date_value, "%Y-%m-%d").date()
            except ValueError:
                raise ValueError(
                    f"Invalid date format: {date_value}, "
                    f"expected YYYY-MM-DD"
                )
        raise ValueError(f"{field_name} is required")
