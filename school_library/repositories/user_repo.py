from school_library.models.user import User
from school_library.extensions import db

class UserRepo:
    @staticmethod
    def get_by_id(user_id: int):
        return db.session.get(User, user_id)


    @staticmethod
    def get_for_update(user_id: int):
        return User.query.filter_by(id=user_id).populate_existing().with_for_update().first()
