from dataclasses import dataclass
from typing import List

import txnest
from txnest import execute, execute_prepared, with_query


@dataclass
class City:
    id: int
    name: str
    countrycode: str
    population: int


def select_all_cities(conn, limit: int = 4, offset: int = 0) -> List[City]:
    with with_query(
        conn,
        ["SELECT * FROM city ORDER BY id LIMIT ? OFFSET ?", limit, offset],
    ) as rows:
        return [City(**row) for row in rows]


def run():
    with txnest.connect("sqlite::memory:") as conn:
        execute(
            conn,
            "CREATE TABLE city (id INTEGER PRIMARY KEY, name TEXT, "
            "countrycode TEXT, population INTEGER)",
        )
        execute_prepared(
            conn,
            "INSERT INTO city (name, countrycode, population) "
            "VALUES (?, ?, ?)",
            ["Kabul", "AFG", 1780000],
            ["Qandahar", "AFG", 237500],
            ["Amsterdam", "NLD", 731200],
        )
        print(select_all_cities(conn))

        with txnest.with_query(
            conn, "SELECT name FROM city", lazy=True, as_arrays=True
        ) as rows:
            for row in rows:
                print(row)


run()
