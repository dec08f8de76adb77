from sketchrounds import create_app, socketio
from sketchrounds.services.timers.monitor import timer_monitor

app = create_app()

if __name__ == '__main__':
    # Without an external cron, tick from inside the server process
    if app.config.get('TIMER_MONITOR_IN_PROCESS'):
        timer_monitor.start(app)
    socketio.run(app, debug=True)
