from ..models.customer import Customer


class CustomerService:
    """Customer contact and shipping details, one row per browser session."""

    @staticmethod
    def upsert(session, session_id: str, **fields) -> Customer:
        """Insert or update inside the caller's transaction."""
        row = session.query(Customer).filter(Customer.session_id == session_id).first()
        if row is None:
            row = Customer(session_id=session_id, first_name="", last_name="")
            session.add(row)
        for key, value in fields.items():
            if value is not None:
                setattr(row, key, value)
        session.flush()
        return row
