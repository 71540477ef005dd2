from arena import db


class KeyValue(db.Model):
    """Scalar key: ``hp:<id>`` or ``wins:<id>`` holding an integer string."""
    __tablename__ = 'kv_entry'
    key = db.Column(db.String(128), primary_key=True)
    value = db.Column(db.Text, nullable=False)


class ListEntry(db.Model):
    """One element of a list key such as ``attacks:<id>``.

    Higher ids are newer; reading a list orders by id descending.
    """
    __tablename__ = 'kv_list_entry'
    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    key = db.Column(db.String(128), nullable=False, index=True)
    value = db.Column(db.Text, nullable=False)
