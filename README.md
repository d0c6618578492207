# lizardb

A management core for a reptile breeding facility. Everything is kept in memory:

- terrariums, their sensors, threshold alarms and equipment switches (`lizardb.terrarium.TerrariumMonitor`)
- stock items such as food, medicine and substrate, with movements, alerts and statistics (`lizardb.stock.StockManager`)
- purchases, sales and other animal transactions, with certificates, validation and financial statistics (`lizardb.transactions.TransactionManager`)
- user accounts, sessions, role-based permissions, the audit log and data encryption (`lizardb.security.SecurityManager`)

`lizardb.app.Application` creates these services, holds the system configuration (`lizardb.config.SystemConfig`), dispatches events to registered callbacks, runs a periodic automatic-backup event and reports system information.

## Installation

```
pip install .
```

## Command line

```
lizardb
```

The command initialises and starts the application, then keeps it running and checks free memory every second (warning when it drops below 100 KiB) until interrupted with Ctrl-C. With `--duration SECONDS` it stops by itself after that many seconds:

```
lizardb --duration 60
```

It returns 0 on a normal stop and 1 when start-up fails.

## Library use

### Stock

```python
from lizardb.stock import StockManager, StockItem, StockType
from lizardb.errors import InsufficientStockError

stock = StockManager()
crickets = stock.add_item(StockItem(name="Crickets", type=StockType.FOOD, min_quantity=50))
stock.add_quantity(crickets.id, 200, 0.05, "delivery-1")

try:
    stock.remove_quantity(crickets.id, 500, "feeding")
except InsufficientStockError:
    print("not enough crickets")

print(stock.stats().total_stock_value)
print(stock.movements(crickets.id))
print(stock.alerts())
```

### Terrariums

```python
from lizardb.terrarium import TerrariumMonitor, Terrarium, Sensor, SensorType

monitor = TerrariumMonitor()
tank = monitor.add(Terrarium(name="Gecko tank"))
probe = monitor.add_sensor(
    tank.id,
    Sensor(name="hot side", type=SensorType.TEMPERATURE,
           min_threshold=24, max_threshold=32, alarm_enabled=True),
)
monitor.read_sensor(probe.id)
monitor.control_equipment(tank.id, "heating", True)
print(monitor.active_alarms())
```

A reading outside a sensor's thresholds raises an alarm when `alarm_enabled` is set. `start()` polls every active sensor on a background thread at the configured interval, and `stop()` ends the polling.

### Transactions

```python
from lizardb.transactions import TransactionManager, Transaction, TransactionType

ledger = TransactionManager()
sale = ledger.create(Transaction(type=TransactionType.SALE, animal_id=7, amount=150.0))
valid, reason = ledger.validate(sale)
certificate = ledger.generate_certificate(sale.id, "sale")
print(ledger.financial_stats().net_profit)
```

### Users and sessions

```python
from lizardb.security import SecurityManager, User, UserRole

password = "password"
security = SecurityManager()
keeper = security.create_user(User(username="keeper", password_hash=password, role=UserRole.OPERATOR))
session_id = security.authenticate("keeper", password)
user_id = security.validate_session(session_id)
print(security.check_permission(user_id, "stock", "update"))
security.logout(session_id)

sealed = security.encrypt(b"breeding notes", "secret")
assert security.decrypt(sealed, "secret") == b"breeding notes"
```

Passwords are stored as salted PBKDF2 hashes. After three failed logins an account is locked for 15 minutes, and sessions expire after an hour without activity. Every login, logout and password change is written to the audit log (`audit_logs()`).

### Errors

Operations raise exceptions derived from `lizardb.errors.LizardError`:

| Exception | Raised when |
| --- | --- |
| `NotFoundError` | The id, session or alarm is unknown. |
| `OutOfCapacityError` | A collection is full: 16 terrariums, 8 sensors per terrarium, 200 stock items or 500 transactions. |
| `InvalidParameterError` | An argument is invalid, or credentials are wrong. |
| `InsufficientStockError` | More stock is withdrawn than is available. |
| `OperationTimeoutError` | `Application.start()` waits too long for initialisation. |

Each exception carries an `ErrorCode` in its `code` attribute.

### Events

```python
from lizardb.app import Application
from lizardb.config import EventType

app = Application()
app.register_event_callback(EventType.SYSTEM_STARTUP, lambda event: print(event.description))
app.init()
app.start()
print(app.system_info().version)
app.shutdown()
```

## What the package does not do

- Nothing is saved: all data is lost when the process ends, and the periodic backup only emits a `BACKUP_COMPLETED` event.
- There is no web interface, touch screen or Wi-Fi handling. The Wi-Fi and web-server fields of `SystemConfig` are stored but not used.
- Sensors are not read from hardware. By default a reading returns the sensor's `current_value`; pass a `reader` function to `TerrariumMonitor` to supply real values.
- There is no animal registry, so `SystemInfo.total_animals` is always 0. There is also no regulatory checking or data export.

## Tests

```
pip install .[test]
pytest
```