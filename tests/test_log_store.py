import asyncio
from datetime import date

from sitelog.db.models.activity import ActivityLog
from sitelog.db.models.log import DailyLog
from sitelog.schemas.log import (
    BlockedTaskEntry, CrewMember, ImageAttachment, LogHeader, LogRecord, TaskEntry
)


def make_record(day, tasks=(), **header):
    return LogRecord(
        project_id=1,
        date=day,
        header=LogHeader(**header),
        tasks=[TaskEntry(text=t) for t in tasks],
    )


def test_save_and_fetch_full_record(sql_store):
    record = LogRecord(
        project_id=1,
        date=date(2024, 3, 1),
        header=LogHeader(engineer="Eng. Paulo", responsible="Ana", weather="Chuvoso", temp_min="15º"),
        tasks=[TaskEntry(text="Pour foundation", location="Bloco A"), TaskEntry(text="Armação")],
        blocked_tasks=[BlockedTaskEntry(text="Laje", reason="Chuva")],
        crew=[CrewMember(role="Mason", count=4), CrewMember(role="Servente", count=0)],
        images=[ImageAttachment(file_path="2024/03/a.jpg")],
        elapsed_days=61,
        snapshot={"platform_name": "Diario"},
    )

    asyncio.run(sql_store.save_log(1, record.date, record, user_id=3))
    loaded = asyncio.run(sql_store.fetch_log(1, date(2024, 3, 1)))

    assert loaded == record
    assert asyncio.run(sql_store.fetch_log(1, date(2024, 3, 2))) is None
    assert asyncio.run(sql_store.fetch_log(2, date(2024, 3, 1))) is None


def test_save_is_an_upsert_per_project_and_date(sql_store, db):
    first = make_record(date(2024, 3, 1), ["Forma"], weather="Ensolarado")
    second = make_record(date(2024, 3, 1), ["Concretagem", "Desforma"], weather="Nublado")

    asyncio.run(sql_store.save_log(1, first.date, first))
    asyncio.run(sql_store.save_log(1, second.date, second, user_id=5))

    assert db.query(DailyLog).count() == 1
    loaded = asyncio.run(sql_store.fetch_log(1, date(2024, 3, 1)))
    assert [t.text for t in loaded.tasks] == ["Concretagem", "Desforma"]
    assert loaded.header.weather == "Nublado"

    actions = [a.action for a in db.query(ActivityLog).order_by(ActivityLog.id).all()]
    assert actions == ["CREATE", "UPDATE"]


def test_find_prior_log_is_strictly_earlier_and_most_recent(sql_store):
    for day in (date(2024, 2, 27), date(2024, 3, 1), date(2024, 3, 4)):
        record = make_record(day, [f"Task {day.isoformat()}"])
        asyncio.run(sql_store.save_log(1, day, record))

    prior = asyncio.run(sql_store.find_prior_log(1, date(2024, 3, 4)))
    assert prior.date == date(2024, 3, 1)

    prior = asyncio.run(sql_store.find_prior_log(1, date(2024, 3, 2)))
    assert prior.date == date(2024, 3, 1)

    assert asyncio.run(sql_store.find_prior_log(1, date(2024, 2, 27))) is None


def test_recent_task_texts_are_distinct_and_bounded(sql_store):
    asyncio.run(sql_store.save_log(1, date(2024, 3, 1), make_record(date(2024, 3, 1), ["Alvenaria", "Reboco"])))
    asyncio.run(sql_store.save_log(1, date(2024, 3, 2), make_record(date(2024, 3, 2), [" REBOCO", "Pintura"])))
    blocked = make_record(date(2024, 3, 3), ["Limpeza"])
    blocked.blocked_tasks = [BlockedTaskEntry(text="Impermeabilização", reason="Chuva")]
    asyncio.run(sql_store.save_log(1, date(2024, 3, 3), blocked))

    texts = asyncio.run(sql_store.fetch_recent_task_texts(1))
    assert texts == ["Limpeza", " REBOCO", "Pintura", "Alvenaria"]

    texts = asyncio.run(sql_store.fetch_recent_task_texts(1, max_records=2))
    assert texts == ["Limpeza", " REBOCO", "Pintura"]


def test_logged_dates_range(sql_store):
    for day in (date(2024, 2, 28), date(2024, 3, 1), date(2024, 3, 15), date(2024, 4, 1)):
        asyncio.run(sql_store.save_log(1, day, make_record(day)))
    asyncio.run(sql_store.save_log(2, date(2024, 3, 2), make_record(date(2024, 3, 2))))

    dates = asyncio.run(sql_store.fetch_logged_dates(1, date(2024, 3, 1), date(2024, 3, 31)))
    assert dates == [date(2024, 3, 1), date(2024, 3, 15)]
