import txnest
from txnest import atomic, execute, execute_prepared, transaction


@atomic
def debit(conn, owner: str, amount: int):
    execute_prepared(
        conn,
        "UPDATE accounts SET balance = balance - ? WHERE owner = ?",
        [amount, owner],
    )
    with txnest.with_query(
        conn, ["SELECT balance FROM accounts WHERE owner = ?", owner]
    ) as rows:
        if rows[0]["balance"] < 0:
            raise ValueError(f"{owner} cannot afford {amount}")


def run():
    with txnest.connect("sqlite::memory:") as conn:
        execute(
            conn,
            "CREATE TABLE accounts (owner TEXT PRIMARY KEY, balance INTEGER)",
            "INSERT INTO accounts VALUES ('alice', 100), ('bob', 10)",
        )

        with transaction(conn):
            debit(conn, "alice", 30)
            try:
                debit(conn, "bob", 50)
            except ValueError as e:
                print(f"Skipped: {e}")

        with txnest.with_query(conn, "SELECT * FROM accounts") as rows:
            print(rows)


run()
