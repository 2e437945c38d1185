"""Database models."""

from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import Column, DateTime, ForeignKey, Integer, JSON, String, \
    Text, UniqueConstraint, text

db: SQLAlchemy = SQLAlchemy()


class DBUser(db.Model):  # type: ignore
    """
    Local user accounts.

    +------------------+--------------+------+-----+---------+----------------+
    | Field            | Type         | Null | Key | Default | Extra          |
    +------------------+--------------+------+-----+---------+----------------+
    | user_id          | int          | NO   | PRI | NULL    | auto_increment |
    | username         | varchar(48)  | NO   | UNI | NULL    |                |
    | email            | varchar(255) | YES  | UNI | NULL    |                |
    | real_name        | varchar(255) | YES  |     | NULL    |                |
    | password_hash    | text         | YES  |     | NULL    |                |
    | password_alg     | varchar(16)  | YES  |     | NULL    |                |
    | password_ver     | int          | YES  |     | NULL    |                |
    | password_salt    | varchar(64)  | YES  |     | NULL    |                |
    | password_rounds  | int          | YES  |     | NULL    |                |
    | password_date    | datetime     | YES  |     | NULL    |                |
    | api_code         | int          | YES  |     | NULL    |                |
    | login_date       | datetime     | YES  |     | NULL    |                |
    | creation_date    | datetime     | NO   |     | NULL    |                |
    +------------------+--------------+------+-----+---------+----------------+
    """

    __tablename__ = 'approom_users'

    user_id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(48), nullable=False, unique=True)
    email = Column(String(255), unique=True)
    real_name = Column(String(255))

    password_hash = Column(Text)
    password_alg = Column(String(16))
    password_ver = Column(Integer)
    password_salt = Column(String(64))
    password_rounds = Column(Integer)
    password_date = Column(DateTime)

    api_code = Column(Integer)
    login_date = Column(DateTime)
    creation_date = Column(DateTime, nullable=False)


class DBLogin(db.Model):  # type: ignore
    """Bridged logins. At most one row per provider identity."""

    __tablename__ = 'approom_logins'
    __table_args__ = (
        UniqueConstraint('provider', 'provider_user_id',
                         name='uq_login_provider_identity'),
    )

    login_id = Column(Integer, primary_key=True, autoincrement=True)
    provider = Column(String(64), nullable=False)
    provider_user_id = Column(String(255), nullable=False)
    user_id = Column(ForeignKey('approom_users.user_id'), index=True)
    extra_data = Column(JSON)
    last_use_date = Column(DateTime)
    last_use_ip = Column(String(64))
    creation_date = Column(DateTime, nullable=False)


class DBVerification(db.Model):  # type: ignore
    """Pending verifications. Only a hash of each code is kept."""

    __tablename__ = 'approom_verifications'

    verification_id = Column(Integer, primary_key=True, autoincrement=True)
    vtype = Column(String(32), nullable=False, index=True)
    unique_code_hashed = Column(String(128), nullable=False, unique=True)
    key = Column(String(64))
    val = Column(String(255), index=True)
    user_id = Column(ForeignKey('approom_users.user_id'), index=True)
    login_id = Column(ForeignKey('approom_logins.login_id'))
    extra_data = Column(JSON)
    ip_created = Column(String(64))
    ip_used = Column(String(64))
    creation_date = Column(DateTime, nullable=False)
    expiration_date = Column(DateTime, nullable=False, index=True)
    used_date = Column(DateTime)


class DBRole(db.Model):  # type: ignore
    """
    Role grants.

    ``object_id`` is ``'*'`` for grants on every object of ``object_type``;
    a sentinel is used instead of NULL so that the unique constraint holds.
    """

    __tablename__ = 'approom_roles'
    __table_args__ = (
        UniqueConstraint('user_id', 'role', 'object_type', 'object_id',
                         name='uq_role_grant'),
    )

    role_id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(ForeignKey('approom_users.user_id'), nullable=False,
                     index=True)
    role = Column(String(32), nullable=False)
    object_type = Column(String(32), nullable=False,
                         server_default=text("'site'"))
    object_id = Column(String(64), nullable=False,
                       server_default=text("'*'"))
