from taskd.main import taskd

taskd()
