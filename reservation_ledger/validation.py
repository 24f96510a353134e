from reservation_ledger.exceptions import InvalidDate

DATE_LENGTH = 10
DATE_SEPARATOR_POSITIONS = (2, 5)
DATE_DIGIT_POSITIONS = (0, 1, 3, 4, 6, 7, 8, 9)


def is_valid_date(date) -> bool:
    """Positional MM/DD/YYYY check; month 1-12, day 1-31, no calendar lookup"""
    if not isinstance(date, str) or len(date) != DATE_LENGTH:
        return False
    if any(date[i] != "/" for i in DATE_SEPARATOR_POSITIONS):
        return False
    # ASCII digits only
    if any(date[i] not in "0123456789" for i in DATE_DIGIT_POSITIONS):
        return False

    month = int(date[0:2])
    day = int(date[3:5])
    return 1 <= month <= 12 and 1 <= day <= 31


def validate_date(date: str) -> str:
    """Return the date unchanged or raise InvalidDate"""
    if not is_valid_date(date):
        raise InvalidDate(str(date))
    return date
