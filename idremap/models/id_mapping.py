import sqlalchemy as sa
from sqlalchemy.dialects import mysql

from idremap import app, db

NewIdType = sa.BigInteger().with_variant(mysql.BIGINT(unsigned=True), "mysql")


def id_mapping_table(
    metadata: sa.MetaData,
    identifier_length: int,
    name: str = "id_mapping",
    schema: str = None,
) -> sa.Table:
    """
    Persisted form of the identifier mapping store.

    old_id is the primary key so that inserting an already mapped identifier
    is rejected by the database, which the generator turns into a no-op.
    new_id is indexed but not unique.
    """
    return sa.Table(
        name,
        metadata,
        sa.Column("old_id", sa.String(identifier_length), primary_key=True),
        sa.Column("new_id", NewIdType, nullable=False),
        sa.Index("idx_new_id", "new_id"),
        schema=schema,
        mysql_engine="InnoDB",
        mysql_charset="utf8mb4",
    )


class IdMapping(db.Model):
    __table__ = id_mapping_table(
        db.metadata,
        app.config["IDENTIFIER_LENGTH"],
        name=app.config["MAPPING_TABLE"],
        schema=app.config["MAPPING_SCHEMA"] or None,
    )

    def __repr__(self):
        return f"<IdMapping {self.old_id} -> {self.new_id}>"
