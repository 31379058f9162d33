"""路由单元：每个模块对应一个分类，模块内的协程函数对应一个端点。"""
