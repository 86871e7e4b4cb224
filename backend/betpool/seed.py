from datetime import timedelta

from betpool import db
from betpool.models import Competition, Team, User, utcnow
from betpool.services.settlement.rounds import add_match, create_round

DEMO_TEAMS = [
    ('Flamengo', 'FLA'),
    ('Palmeiras', 'PAL'),
    ('Corinthians', 'COR'),
    ('Sao Paulo', 'SAO'),
    ('Gremio', 'GRE'),
    ('Internacional', 'INT'),
]


def seed_demo_data():
    """Admin, three players, six teams and one upcoming round of three matches."""
    admin = User(username='admin', display_name='Admin', email='admin@example.com', is_admin=True)
    admin.set_password('password')
    db.session.add(admin)
    for name in ['testuser1', 'testuser2', 'testuser3']:
        user = User(username=name, display_name=name.title(), email=f'{name}@example.com')
        user.set_password('password')
        db.session.add(user)

    teams = [Team(name=name, short_name=short) for name, short in DEMO_TEAMS]
    db.session.add_all(teams)
    competition = Competition(name='Brasileirao', season_year=utcnow().year)
    db.session.add(competition)
    db.session.flush()

    start = utcnow() + timedelta(days=1)
    round_ = create_round(
        competition,
        round_number=1,
        name='Round 1',
        start_date=start,
        end_date=start + timedelta(days=3),
        bets_deadline=start + timedelta(hours=12),
        ticket_price='10.00',
    )
    for idx in range(0, len(teams), 2):
        add_match(round_, teams[idx], teams[idx + 1], start + timedelta(days=1, hours=idx))
    db.session.commit()
